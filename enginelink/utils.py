def color_text(text, color_code):
    return f"\033[{color_code}m{text}\033[0m"

def debug_text(text):
    return f"{color_text('DEBUG', '31')} {text}"

def info_text(text):
    return f"{color_text('INFO', '34')}  {text}"

def sending_text(text):
    return f"{color_text('SENDING  ', '32')} {text}"

def received_text(text):
    return f"{color_text('RECEIVED ', '35')} {text}"

def warning_text(text):
    return f"{color_text('WARNING', '33')} {text}"


class ConsoleTrace:
    """Debug-gated console output shared by the session components."""

    def __init__(self, enabled: bool = False, label: str = "Engine") -> None:
        self.enabled = enabled
        self.label = label

    def sending(self, command: str) -> None:
        if self.enabled:
            print(sending_text(f"[{self.label}] {command}"))

    def received(self, line: str) -> None:
        if self.enabled:
            print(received_text(f"[{self.label}] {line}"))

    def info(self, message: str) -> None:
        if self.enabled:
            print(info_text(message))

    def debug(self, message: str) -> None:
        if self.enabled:
            print(debug_text(message))

    def warning(self, message: str) -> None:
        if self.enabled:
            print(warning_text(message))
