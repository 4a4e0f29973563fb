"""Read, write and edit Mach-O universal (fat) binaries and ar archives."""

__version__ = "0.1.0"