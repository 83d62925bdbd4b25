from wumon.cli import main

main()
