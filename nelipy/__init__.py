"""Netlink sockets, multicast groups, buffer pools and routing netlink structures."""

__version__ = "0.7.4"

__all__ = ["rtattr", "rtnl", "socket", "types", "utils"]