from django.http import JsonResponse


def error_404_view(request, exception):
    return JsonResponse({"message": "Not found"}, status=404)


def error_500_view(request):
    # no details; the traceback is in the server log
    return JsonResponse({"message": "Internal server error"}, status=500)
