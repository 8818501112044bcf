"""
Output routing and status rendering.
"""
from .router import OutputRouter, OutputSink, PaneOutputSink, StreamOutputSink, create_router
from .tmux import TmuxManager, tmux_available

__all__ = [
    'OutputRouter',
    'OutputSink',
    'PaneOutputSink',
    'StreamOutputSink',
    'create_router',
    'TmuxManager',
    'tmux_available',
]
