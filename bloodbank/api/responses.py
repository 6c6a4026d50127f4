"""
Response shaping and the boundary that collapses unexpected failures.
"""

import sys
import traceback

from flask import jsonify

from bloodbank.errors import Internal, ServiceError


def error_response(err: ServiceError):
    return jsonify(err.to_dict()), err.status


def guarded(label, fn, *args, **kwargs):
    """Call *fn*; anything that is not a ServiceError becomes Internal.

    The original exception is logged here and never sent to the client.
    """
    try:
        return fn(*args, **kwargs)
    except ServiceError:
        raise
    except Exception as e:
        print(f"[ERROR] {label} failed: {e}", file=sys.stderr)
        traceback.print_exc()
        raise Internal() from e
