"""
rootsplit - Split a single large root partition into root, swap, /var and /home.

Shrinks the root filesystem of a boot disk, creates the new partitions in
the freed space, moves /var and /home onto them and updates /etc/fstab.
"""

__version__ = "1.0.0"
__author__ = "rootsplit developers"

from rootsplit.core.config import RootSplitConfig
from rootsplit.core.session import Session

__all__ = ["RootSplitConfig", "Session", "__version__"]
