"""SCA Sentinel — identify third-party components and map them to known vulnerabilities."""

__version__ = "0.1.0"
