"""State layer.

Owned state cells with change notification.  Components publish their
current values here; UI and logging layers only observe them.
"""

from beaconsync.state.observable import Observable, ObservableValue

__all__ = ["Observable", "ObservableValue"]
