"""Signal names for process termination reporting.

The Process Runner records which signals it sent while stopping a process,
and the classifier reports signals that killed a process on their own.
"""

import signal


def get_signal_name(sig_num: int) -> str:
    """Get human-readable signal name.

    Args:
        sig_num: The signal number (e.g., signal.SIGTERM)

    Returns:
        Signal name (e.g., "SIGTERM") or "signal N" if unknown
    """
    try:
        return signal.Signals(sig_num).name
    except ValueError:
        return f"signal {sig_num}"
