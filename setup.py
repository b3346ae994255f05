from setuptools import setup, find_packages

package_name = 'interactive_flower'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'setuptools',
        'fastapi>=0.104.0',
        'uvicorn>=0.24.0',
        'websockets>=13.0',
        'python-osc>=1.8.0',
        'mediapipe>=0.10.0',
        'opencv-python>=4.8.0',
        'numpy>=1.24.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
            'httpx>=0.24.0',
        ],
    },
    zip_safe=True,
    description='Hand-driven generative flower with a WebSocket to OSC bridge',
    license='MIT',
    entry_points={
        'console_scripts': [
            'flower-bridge = flower_bridge.main:main',
            'flower-client = flower_client.main:main',
        ],
    },
)
