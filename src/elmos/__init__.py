"""
elmos - Embedded Linux on MacOS.

This package builds out-of-tree kernel modules against a configured kernel
tree and maintains the insmod/rmmod queue that the emulator launch step reads
on the next boot.
"""

__version__ = "0.1.0"
