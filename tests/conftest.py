import os
import tempfile

# log files go to a throwaway home instead of ~/.kanri
os.environ.setdefault("KANRI_HOME_DIR", tempfile.mkdtemp(prefix="kanri-test-"))
os.environ.setdefault("KANRI_STORAGE", "memory")
