#!/usr/bin/env python

"""
    Pustak, the catalog and circulation engine for small libraries

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

__version__ = '0.1.0'
