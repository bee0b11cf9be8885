from goldledger import create_app

app = create_app()
