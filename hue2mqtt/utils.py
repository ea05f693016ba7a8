"""
Utility functions for the hue2mqtt library
"""
import asyncio
import copy
import sys
from typing import Callable, Any, Awaitable


def run_with_keyboard_interrupt(main_func: Callable[[], Awaitable[Any]]) -> None:
    """
    Run an async main function with graceful KeyboardInterrupt handling.
    
    This function wraps asyncio.run() to catch KeyboardInterrupt (Ctrl+C) and
    provide a clean shutdown experience. Any other exception escaping the
    main function ends the process with exit status 1.
    
    Args:
        main_func: The async main function to run
    """
    try:
        asyncio.run(main_func())
    except KeyboardInterrupt:
        print("\n🛑 Interrupted by user (Ctrl+C)")
        print("Shutting down gracefully...")
        sys.exit(0)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


def deep_merge(target: dict, source: dict) -> dict:
    """
    Merge source into target in place and return target.

    Nested mappings are merged key by key; every other value, lists included,
    replaces what was there. Keys missing from source are left untouched.
    """
    for key, value in source.items():
        existing = target.get(key)
        if isinstance(value, dict) and isinstance(existing, dict):
            deep_merge(existing, value)
        elif isinstance(value, dict):
            target[key] = deep_merge({}, value)
        elif isinstance(value, list):
            target[key] = copy.deepcopy(value)
        else:
            target[key] = value
    return target
