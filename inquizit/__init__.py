"""
Inquizit

Schedules and generates personalized practice scenarios ("quizits") from a pool
of cards, in free-form and spaced-repetition sessions.
"""

from . import errors
from . import structured
from . import db
from . import session_store
from . import selection
from . import scheduler
from . import prompts
from . import seeds
from . import quizits
from . import sessions

__version__ = "0.1.0"
__all__ = ["errors", "structured", "db", "session_store", "selection", "scheduler",
           "prompts", "seeds", "quizits", "sessions"]
