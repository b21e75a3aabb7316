from wagpt.cli import main

main()
