__all__ = ["install", "ops", "remove", "update"]

import gitweave.pkg.install as install
import gitweave.pkg.ops as ops
import gitweave.pkg.remove as remove
import gitweave.pkg.update as update
