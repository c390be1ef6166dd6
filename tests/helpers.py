import json


def data_line(content) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]})
