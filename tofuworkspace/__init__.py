"""
tofuworkspace - Reconciles declarative Workspaces with OpenTofu.
"""

__version__ = "0.1.0"
