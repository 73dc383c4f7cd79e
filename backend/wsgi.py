from inventra import create_app

app = create_app()
