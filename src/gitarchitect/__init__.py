"""GitArchitect - context-bounded implementation planning for code repositories.

GitArchitect turns an arbitrary repository into a bounded, redacted context
that a language model can reason over, then synthesizes and iteratively
refines a step-by-step implementation plan from that context.

Core principles:
- Bounded Context: Tree digests and file excerpts have hard size caps
- Filter-After-Generate: Model-selected paths are checked against the real tree
- Redact Before Send: No file content leaves the pipeline unscanned
- Pluggable Backends: Hosted and local model gateways share one interface
- No Hidden Retries: Every network call is a single attempt
"""

__version__ = "0.1.0"
__author__ = "GitArchitect Contributors"
