import logging


class PropertyChangeFilter(logging.Filter):
    # pylint: disable=too-few-public-methods

    def __init__(self):
        logging.Filter.__init__(self)
        self.last_event = {}

    def filter(self, record):
        if "object_path" in record.__dict__:
            object_path = record.__dict__["object_path"]
            message = record.getMessage()
            if self.last_event.get(object_path) == message:
                return False
            self.last_event[object_path] = message
        return True
