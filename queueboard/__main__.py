from queueboard.app.main import main

main()
