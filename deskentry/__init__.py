from deskentry.core.decoder import DuplicatePolicy, parse, parse_file
from deskentry.core.entry import (
    Entry,
    Group,
    LocalizedValue,
    find_entry_from_appid,
    get_localized,
)
from deskentry.core.errors import (
    DeskEntryError,
    DuplicateKey,
    InvalidEscape,
    InvalidValue,
    KeyNotFound,
    KeyOutsideGroup,
    MalformedGroupHeader,
    MalformedLine,
    ParseError,
)
from deskentry.core.exec_expander import expand_exec
from deskentry.core.launcher import (
    LaunchRequest,
    detect_terminal,
    launch,
    launch_entry,
    overlay_env,
)
from deskentry.core.locales import LocaleTag, languages_from_env, locale_candidates
from deskentry.core.spawner import spawn
from deskentry.shared.dbus_helpers import Gpu, GpuPreference, GpuResolver, select_gpu

__version__ = "0.1.0"
