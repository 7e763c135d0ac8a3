# Archive comment marker
PASSWORD_MARKER = "SZIP_PASSWORD_PROTECTED:"

# Credential field separator; never appears in a hex field or a tag
CREDENTIAL_SEPARATOR = "$"

# Credential schemes
KDF_ARGON2ID = "argon2id"
KDF_PBKDF2_SHA512 = "pbkdf2_sha512"
DEFAULT_KDF = KDF_ARGON2ID

# Argon2id parameters (only the time cost is recorded per credential)
ARGON_DEFAULT_ITERATIONS = 3
ARGON_MAX_ITERATIONS = 64
ARGON_MEMORY_COST_KIB = 19 * 1024  # 19 MiB
ARGON_PARALLELISM = 1
ARGON_DIGEST_SIZE = 32
ARGON_SALT_SIZE = 16

# PBKDF2 parameters (legacy credentials, read and write)
PBKDF2_DEFAULT_ITERATIONS = 100_000
PBKDF2_MAX_ITERATIONS = 1_000_000
PBKDF2_DIGEST_SIZE = 64
PBKDF2_SALT_SIZE = 32

# Compression
MIN_COMPRESSION_LEVEL = 1
MAX_COMPRESSION_LEVEL = 9
DEFAULT_COMPRESSION_LEVEL = 9
DEFAULT_METHOD = "deflate"

DEFAULT_CHUNK_SIZE = 64 * 1024  # 64 KiB
DEFAULT_HASH_ALGORITHM = "sha256"

# Entry kinds
KIND_FILE = "file"
KIND_DIR = "dir"

# Exists policies for extraction
EXISTS_POLICIES = ("overwrite", "skip", "rename", "fail")
DEFAULT_EXISTS_POLICY = "overwrite"

MAX_FILENAME_LENGTH = 255
