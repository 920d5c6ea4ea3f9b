# module checkout.app
from checkout.app_setup.factory import create_app

app = create_app()
