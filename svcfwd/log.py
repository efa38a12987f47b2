"""Logging configuration for the svcfwd command line."""
import logging
import sys


class SafeUnicodeFilter(logging.Filter):
    """Filter to sanitize log messages containing surrogate characters.

    Service, pod and context names come straight from the API server and
    kubectl output is relayed into the log, so a record can carry surrogate
    characters (U+D800 to U+DFFF) that would raise UnicodeEncodeError in
    the stream handler.
    """

    def filter(self, record):
        """Sanitize the log message and its string arguments."""
        if isinstance(record.msg, str):
            record.msg = _sanitize(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                _sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True


def _sanitize(text):
    try:
        text.encode('utf-8')
        return text
    except UnicodeEncodeError:
        return text.encode('utf-8', errors='replace').decode('utf-8')


def configure_logging(verbose=False, stream=None):
    """
    Configure the root logger for a forwarding run.

    Args:
        verbose: Log at DEBUG instead of INFO (default: False)
        stream: Output stream for the handler (default: sys.stderr)

    Returns:
        logging.Handler: The installed handler
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(message)s", "%H:%M:%S"))
    handler.addFilter(SafeUnicodeFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_svcfwd", False):
            root.removeHandler(existing)
    handler._svcfwd = True
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    # The kubernetes client logs every request at DEBUG.
    logging.getLogger("kubernetes").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return handler
