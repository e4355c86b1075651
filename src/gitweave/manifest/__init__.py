__all__ = ["core"]

import gitweave.manifest.core as core
