from .usb_reset import HardwareRestarter, RestartDebounce

__all__ = ["HardwareRestarter", "RestartDebounce"]
