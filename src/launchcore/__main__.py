from launchcore.apps.cli.app import main

main()
