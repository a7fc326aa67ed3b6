"""
Shared helpers: git, mirroring, filesystem, prompts and site tools
"""
