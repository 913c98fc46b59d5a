import subprocess

# This variable is intended to be overwritten during the build/release process
__version__ = "test"


def get_version() -> str:
    """
    Returns the current version of the application.
    Priorities:
    1. Explicitly set __version__ (if not "test")
    2. Git commit hash (if inside a git repo)
    3. Fallback "test"
    """
    if __version__ != "test":
        return __version__

    try:
        cmd = ["git", "rev-parse", "--short", "HEAD"]
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return result.stdout.strip()
    except (subprocess.CalledProcessError, FileNotFoundError):
        pass

    return "test"
