from tileload.models.request import CompletionResult, RequestDescriptor

__all__ = ["CompletionResult", "RequestDescriptor"]
