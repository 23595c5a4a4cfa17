# =============================================================================
# Models Package - Pydantic V2 Schemas
# =============================================================================
#   - messages.py:  ChatMessage and its tagged-union content parts
#   - requests.py:  API request bodies
#   - responses.py: API response bodies
#   - frames.py:    SSE frame payloads for the chat stream
# =============================================================================
