"""DMP-ID storage on DynamoDB: key management, versioning and tombstones."""

__version__ = "0.1.0"
