from retailpos import create_app

app = create_app()
