#
# _version.py: virtual_tracker package version
#
# Copyright DeGirum Corporation 2025
# All rights reserved
#

__version_info__ = (0, 3, 0)
__version__ = ".".join(str(v) for v in __version_info__)
