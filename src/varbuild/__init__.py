"""varbuild: incremental, variant-aware build orchestrator for C projects.

Builds one source tree into several mutually incompatible artifacts
(native, GTK, Windows, shared library, WebAssembly) that share a single
object cache without clobbering each other, recompiling only stale files
in parallel.
"""

__version__ = "0.1.0"
