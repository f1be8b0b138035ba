"""
PATCHWRIGHT — issue-to-patch and diff-to-review agent.

Collect bounded context, ask a chat-completion endpoint for a strict
JSON answer, validate it, and either write files or render a review.
"""

import os

# litellm is only used for its price table. Use the bundled copy so a run
# makes no outbound call besides the completion request.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

from patchwright.identity import __codename__, __tagline__, __version__

__all__ = ["__codename__", "__tagline__", "__version__"]
