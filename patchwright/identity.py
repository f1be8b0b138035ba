"""PATCHWRIGHT identity constants."""

__codename__ = "PATCHWRIGHT"
__version__ = "0.1.0"
__tagline__ = "Issues in. Patches out."

BANNER = r"""
  ___  _ _____ ___ _  ___      _____ ___ ___ _  _ _____
 | _ \/_\_   _/ __| || \ \    / / _ \_ _/ __| || |_   _|
 |  _/ _ \| || (__| __ |\ \/\/ /|   /| | (_ | __ | | |
 |_|/_/ \_\_| \___|_||_| \_/\_/ |_|_\___\___|_||_| |_|
"""
