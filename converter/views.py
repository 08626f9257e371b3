import json
import logging

from django.http import HttpResponse, JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from converter.tasks import process_update

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, X-Telegram-Bot-Api-Secret-Token',
}


def with_cors(response):
    for header, value in CORS_HEADERS.items():
        response[header] = value
    return response


@csrf_exempt
@require_http_methods(['GET', 'POST', 'OPTIONS'])
def webhook_view(request):
    """
    Telegram webhook endpoint.

    POST: enqueue the update for background processing and acknowledge it
    immediately, so Telegram does not redeliver it while the video converts.
    GET: health check.
    OPTIONS: CORS preflight.
    """
    if request.method == 'OPTIONS':
        return with_cors(HttpResponse(status=200))

    if request.method == 'GET':
        return with_cors(JsonResponse({
            'status': 'OK',
            'message': 'Telegram Video to Audio Bot is running!',
            'timestamp': timezone.now().isoformat(),
        }))

    try:
        update = json.loads(request.body or b'')
    except ValueError:
        return with_cors(JsonResponse({'error': 'Invalid JSON body'}, status=400))

    if not isinstance(update, dict):
        return with_cors(JsonResponse({'error': 'Update must be a JSON object'}, status=400))

    try:
        process_update(update)
    except Exception:
        logger.exception("Could not enqueue update %s", update.get('update_id'))
        return with_cors(JsonResponse(
            {'error': 'Internal Server Error', 'message': 'Could not process the update'}, status=500
        ))

    return with_cors(JsonResponse({'status': 'success'}))
