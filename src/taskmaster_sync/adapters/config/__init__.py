"""
Configuration adapters.
"""

from .file_provider import FileConfigProvider, config_from_dict, config_to_dict


__all__ = ["FileConfigProvider", "config_from_dict", "config_to_dict"]
