default_config = {
    "_section_hint": "Settings for deskentry, a Desktop Entry parser and launcher.",
    "parser": {
        "_section_hint": "How desktop entry files are decoded.",
        "duplicate_keys": "last",
        "duplicate_keys_hint": (
            "What happens when a key (with the same locale) appears twice in one "
            "group: 'last' keeps the last value, 'first' keeps the first value, "
            "'error' rejects the file."
        ),
    },
    "gpu": {
        "_section_hint": "GPU selection through the switcheroo-control service.",
        "enabled": True,
        "enabled_hint": (
            "Set to false to never query the system bus for GPUs when launching."
        ),
        "timeout": 2.0,
        "timeout_hint": (
            "Seconds to wait for the GPU service before launching without a GPU hint."
        ),
    },
    "launch": {
        "_section_hint": "Defaults used when launching applications.",
        "gpu_preference": "",
        "gpu_preference_hint": (
            "GPU used when the caller does not ask for one: 'default', "
            "'non-default', a GPU index such as '1', or empty to only honour "
            "PrefersNonDefaultGPU."
        ),
        "terminal": "",
        "terminal_hint": (
            "Command used to run Terminal=true entries, e.g. 'foot' or "
            "'kitty -e'. Empty picks x-terminal-emulator, gnome-terminal or konsole."
        ),
    },
    "logging": {
        "_section_hint": "Diagnostics.",
        "level": "INFO",
        "level_hint": "One of DEBUG, INFO, WARNING, ERROR.",
    },
}
