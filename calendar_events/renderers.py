from rest_framework import renderers


class ICalendarRenderer(renderers.BaseRenderer):
    """
    Passes serialized iCalendar bytes through. Error payloads are rendered as their plain
    ``detail`` text since calendar clients can't read JSON bodies.
    """

    media_type = "text/calendar"
    format = "ics"
    charset = "utf-8"

    def render(self, data, accepted_media_type=None, renderer_context=None):
        if data is None:
            return b""
        if isinstance(data, bytes):
            return data
        if isinstance(data, dict) and "detail" in data:
            data = data["detail"]
        return str(data).encode(self.charset)
