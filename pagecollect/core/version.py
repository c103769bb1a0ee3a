LIBRARY_NAME = "pagecollect"
VERSION = "0.1.0"


def get_user_agent() -> str:
    """User-Agent for outbound destination calls"""
    return f"{LIBRARY_NAME}/{VERSION} bot=true"
