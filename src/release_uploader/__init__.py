"""Release Uploader.

Creates or updates a GitHub release for a tag and uploads build artifacts
to it as release assets. Intended to run as a CI step on tag pushes.
"""

__version__ = "0.1.0"
