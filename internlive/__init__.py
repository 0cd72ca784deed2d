"""internlive: real-time notification and presence sync for the internship platform."""

__version__ = "0.1.0"
