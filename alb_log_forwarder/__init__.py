"""
Forward AWS ALB access logs from S3 to a Loki push endpoint
"""

__version__ = "1.0.0"
