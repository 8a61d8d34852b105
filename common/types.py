from typing import TypedDict

from rest_framework.viewsets import GenericViewSet, ViewSet, ViewSetMixin


class RouteDict(TypedDict):
    """
    A router registration entry: URL prefix, viewset and route basename.
    """

    regex: str
    viewset: type[GenericViewSet] | type[ViewSet] | type[ViewSetMixin]
    basename: str
