"""
concrete_sync
=============

Move a Concrete CMS site's database, uploaded files and configuration
between environments, using a Git repository of tagged snapshots.
"""

__version__ = "0.1.0"

from concrete_sync.config_yaml import load_config
from concrete_sync.settings import Settings, load_settings
