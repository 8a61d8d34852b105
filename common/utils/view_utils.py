from rest_framework import generics, mixins, status
from rest_framework.response import Response
from rest_framework.viewsets import ViewSetMixin


class ReadWriteSerializerMixin:
    """
    Picks distinct serializers for reading and writing.

    Input is validated with `write_serializer_class` (or `create_serializer_class` on
    create) and responses are rendered with `read_serializer_class`. Both fall back to
    `serializer_class`.
    """

    def get_read_serializer_class(self):
        if getattr(self, "read_serializer_class", None) is None:
            return self.get_serializer_class()

        return self.read_serializer_class

    def get_read_serializer(self, *args, **kwargs):
        serializer_class = self.get_read_serializer_class()
        kwargs["context"] = self.get_serializer_context()
        return serializer_class(*args, **kwargs)

    def get_write_serializer_class(self):
        if getattr(self, "write_serializer_class", None) is None:
            return self.get_serializer_class()

        return self.write_serializer_class

    def get_create_serializer_class(self):
        if getattr(self, "create_serializer_class", None) is None:
            return self.get_write_serializer_class()

        return self.create_serializer_class

    def get_create_serializer(self, *args, **kwargs):
        serializer_class = self.get_create_serializer_class()
        kwargs["context"] = self.get_serializer_context()
        return serializer_class(*args, **kwargs)


class CreateModelMixin(ReadWriteSerializerMixin, mixins.CreateModelMixin):
    def create(self, request, *args, **kwargs):
        serializer = self.get_create_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)
        instance = serializer.instance

        # re-fetches the instance so prefetches are applied to the response
        refetched_instance = self.get_queryset().get(pk=instance.pk)
        return_serializer = self.get_read_serializer(refetched_instance)
        headers = self.get_success_headers(return_serializer.data)
        return Response(return_serializer.data, status=status.HTTP_201_CREATED, headers=headers)


class FilterOnlyOnListMixin:
    def filter_queryset(self, queryset):
        if self.action != "list":
            return queryset
        return super().filter_queryset(queryset)


class CreateAndReadHouseholdModelViewSet(
    ViewSetMixin,
    FilterOnlyOnListMixin,
    mixins.RetrieveModelMixin,
    CreateModelMixin,
    mixins.ListModelMixin,
    generics.GenericAPIView,
):
    """
    A viewset for household-scoped models that provides `create()`, `retrieve()` and
    `list()`. Writes that need domain rules (scoped edits, deletes) are declared on the
    concrete viewset.
    """

    pass
