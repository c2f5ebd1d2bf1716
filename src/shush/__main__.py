from shush.cli.main import main

main()
