from .ProxyServer import ProxyServer
from .ConnectionHandler import ConnectionHandler, send_error_response
