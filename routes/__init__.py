# Blueprint registration module
from .checkins import checkins_bp

__all__ = [
    'checkins_bp',
]
