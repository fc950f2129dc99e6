import dbus

DBUS_TIMEOUT_ERRORS = (
    "org.freedesktop.DBus.Error.NoReply",
    "org.freedesktop.DBus.Error.Timeout",
    "org.freedesktop.DBus.Error.TimedOut",
)


class ConnmanError(Exception):
    pass


class NotBoundError(ConnmanError):
    pass


class NoServiceError(ConnmanError):
    pass


class NoTechnologyError(ConnmanError):
    pass


class NoSuchServiceError(ConnmanError):
    pass


class BindingError(ConnmanError):
    pass


class CallTimeoutError(ConnmanError, TimeoutError):
    pass


class RemoteError(ConnmanError):
    def __init__(self, name: str, message: str):
        ConnmanError.__init__(self, f"{name}: {message}" if message else name)
        self.name = name
        self.message = message


class AnswerError(ConnmanError):
    pass


def from_dbus_exception(ex: dbus.exceptions.DBusException) -> ConnmanError:
    name = ex.get_dbus_name() or "org.freedesktop.DBus.Error.Failed"
    if name in DBUS_TIMEOUT_ERRORS:
        err = CallTimeoutError(ex.get_dbus_message() or name)
    else:
        err = RemoteError(name, ex.get_dbus_message())
    err.__cause__ = ex
    return err
