"""
Run the bridge against the sample configuration in this directory.

    python examples/mqtt_bridge.py
"""

from hue2mqtt import run_with_keyboard_interrupt
from hue2mqtt.bridge import run_bridge


async def main():
    await run_bridge("examples/config.yaml")


if __name__ == "__main__":
    run_with_keyboard_interrupt(main)
