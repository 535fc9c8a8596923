from fastapi.responses import JSONResponse


def _envelope(ok, data, error, message, status):
    # Empty lists and zero counts are real payloads; only None becomes {}
    return JSONResponse(
        status_code=status,
        content={
            "ok": ok,
            "data": {} if data is None else data,
            "error": error,
            "message": message,
        }
    )


def success_response(data=None, message="OK", status=200):
    return _envelope(True, data, None, message, status)


def error_response(error_code, status=400, message="An error occurred", data=None):
    return _envelope(False, data, error_code, message, status)
