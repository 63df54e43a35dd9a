"""Version information for Metaworks ECC"""

__version__ = "1.0.0"
__application__ = "Metaworks ECC"
__description__ = "NCA Essential Cybersecurity Controls Compliance Platform"
