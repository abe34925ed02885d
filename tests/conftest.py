import os
import tempfile

# mpc_center.web_admin builds its app at import time; keep that config out of the working tree.
os.environ.setdefault(
    "MPC_CENTER_CONFIG_PATH",
    os.path.join(tempfile.mkdtemp(prefix="mpc-center-tests-"), "config.yaml"),
)
