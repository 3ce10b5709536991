"""
Site Suitability: developable area generation and site scoring
"""

__version__ = "1.0.0"
