"""
cms_auth - authentication and two-factor security for the CMS backend
"""

__version__ = "1.0.0"
