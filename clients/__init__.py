from clients.rest import RESTClient
from clients.tp import TPClient
from clients.canvas import CanvasClient

__all__ = ['RESTClient', 'TPClient', 'CanvasClient']
