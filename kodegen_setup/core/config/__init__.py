"""
Installer configuration loading (installer.yml → InstallerConfig).
"""
