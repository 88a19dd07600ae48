"""
aws-keychain: named AWS access keys kept in the platform keychain.

Stores access key pairs in the operating system's secret store and switches
the active pair by rewriting the credentials file read by AWS tooling.
"""

__version__ = "1.0.0"
__author__ = "Tyler Zervas"
__email__ = "tz-dev@vectorweight.com"
