from binspect.cli import main

main()
