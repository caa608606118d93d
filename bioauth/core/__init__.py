from .config import settings, init_settings
from .encoding import encoding_utils
from .exceptions import *
from .hooks import HookManager, Events
