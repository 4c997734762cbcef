from importlib import import_module

# Re-export individual router modules so they can be imported as attributes

chat_ws = import_module('.chat_ws', __name__)
