"""Mount an object storage bucket as a read-only file system."""
