"""Module defining various global constants."""

# bucketfs version
VERSION = "1.0.0"

# Format of the persisted content cache index.
# The major version must match for an existing index to be reused.
CACHE_FORMAT_VERSION = "1.0.0"

# Special exit code for when bucketfs itself fails.
BUCKETFS_ERROR_CODE = 254

# Name of the FUSE file system
FILESYSTEM_NAME = "bucketfs"

# Identity numbers. The root directory is always 1 and every other entry gets a number
# from a counter that starts well above the range FUSE reserves for itself.
ROOT_ID = 1
FIRST_DYNAMIC_ID = 1000

# Separator used to synthesize directories from flat object keys.
DELIMITER = "/"
