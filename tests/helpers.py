import json


def parse_sse_events(body):
    """Split an SSE body into decoded JSON payloads, in order."""
    events = []
    for block in body.split("\n\n"):
        for line in block.splitlines():
            if line.startswith("data: "):
                events.append(json.loads(line[len("data: "):]))
    return events


def assert_sse_event(body, **expected_data):
    """
    Assert that an SSE event with the expected data exists in the body.
    Checks all events.
    """
    for data in parse_sse_events(body):
        if all(key in data and data[key] == value for key, value in expected_data.items()):
            return data

    assert False, f"No event found with all expected data: {expected_data} in SSE body:\n{body}"


def assembled_content(body):
    """Concatenate the content of every content event."""
    return "".join(event["content"] for event in parse_sse_events(body) if "content" in event)


def terminal_events(body):
    """Get the done and error events of a stream."""
    return [event for event in parse_sse_events(body) if "done" in event or "error" in event]
